"""
Documents and their movement log.

- A document is created together with its "creacion" movement
- Every movement appends a row and updates the document's status/department
- QR codes carry the business document code (DOC-...)
"""
