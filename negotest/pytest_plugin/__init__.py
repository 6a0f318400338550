"""negotest pytest plugin"""
