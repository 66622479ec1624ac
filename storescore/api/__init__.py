"""
HTTP routers, mounted under /api by storescore.main
"""
