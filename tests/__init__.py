"""
Test suite for tiertransfer

Contains:
- tests/unit/ : Unit tests for individual modules and the transfer flow
"""
