"""
REST API（供前端展示层调用）
"""
