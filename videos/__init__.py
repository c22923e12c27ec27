"""
videos — Dropbox folder listing translated into ``VideoRecord`` values.
"""
