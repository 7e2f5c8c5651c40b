"""Amara - AI concierge and the structured LLM client shared with reviews and matching"""
