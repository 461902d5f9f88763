"""
Infrastructure Module
=====================

Persistence shared by every bounded context.
"""
