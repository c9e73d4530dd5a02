"""Integration tests"""
