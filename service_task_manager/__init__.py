"""
Task Manager service.
"""
