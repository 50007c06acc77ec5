"""tierstore - tiered blob storage for generated artifact trees.

Small files are stored inline in a relational table, or offloaded to
object storage when it is configured. Reads are tier-transparent.
"""

__version__ = "0.3.0"
