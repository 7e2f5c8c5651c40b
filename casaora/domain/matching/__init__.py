"""Smart matching - natural language requirements to ranked professionals"""
