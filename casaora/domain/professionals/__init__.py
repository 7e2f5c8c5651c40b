"""Professional profiles, the public directory and the pro dashboard"""
