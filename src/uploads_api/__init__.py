"""
Batch image upload server.
Stores uploaded images under ``<baseName>-<n><ext>`` names and serves them back.
"""
