"""ID Scanner.

Web service that extracts identity fields from photos of ID documents
with a hosted multimodal model and stores the reviewed results in
MongoDB.
"""

__version__ = "1.0.0"
