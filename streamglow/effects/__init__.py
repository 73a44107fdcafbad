"""
effects — Effect data model, color conversion, and event → effect resolution.
"""
