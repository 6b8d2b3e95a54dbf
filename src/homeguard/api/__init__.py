"""HomeGuard HTTP API"""
