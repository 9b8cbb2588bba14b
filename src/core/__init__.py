"""Core domain package for kudosbot.

Core contains the handler registry, dispatch, and workspace lifecycle logic
without any Slack or storage-specific code, keeping the business logic portable.
"""
