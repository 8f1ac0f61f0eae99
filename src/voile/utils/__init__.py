"""Hashing and encoding helpers"""
