"""Admin back office: user moderation and platform stats"""
