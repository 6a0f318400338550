"""negotest command line interface"""
