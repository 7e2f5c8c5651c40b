"""Trial credits - booking spend that discounts a later direct hire fee"""
