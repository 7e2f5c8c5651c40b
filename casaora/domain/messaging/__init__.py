"""Customer-professional messaging"""
