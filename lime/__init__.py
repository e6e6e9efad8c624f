"""LIME - LINE backup viewer.

Reads an exported LINE chat database and its media folder, resolves message
attachments and exports transcripts.
"""

__version__ = "0.1.0"
