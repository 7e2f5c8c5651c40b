"""Reviews - submission, AI sentiment analysis and moderation routing"""
