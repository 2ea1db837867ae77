"""
Chat agent: intent extraction, calendar execution and reply synthesis.
"""
