"""
Backend Scripts Module

This module contains utility scripts for database operations and maintenance.

Available scripts:
    - seed_data.py: Creates sample expenses and prints bearer tokens for testing

Usage:
    python -m scripts.seed_data
"""
