"""
Core domain models, discount math, contracts and errors.

This module contains the building blocks that are independent of external
systems (state oracle, settlement service).
"""
