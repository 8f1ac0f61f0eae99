"""Transport models"""
