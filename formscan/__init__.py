"""Document form OCR and field extraction.

Normalizes photographed or scanned form images, recognizes their text
with Tesseract or a remote OCR backend, and extracts structured fields
from the text using per-document-type rule tables.
"""
