"""
Console API

单进程 API 服务：用户/权限、条目管理、AI 对话代理、余额表上传
"""

__version__ = "1.2.0"
