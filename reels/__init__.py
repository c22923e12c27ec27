"""
reels — persisted, shareable collections of ordered video references.
"""
