"""
File attachments for documents (PDF, Word, Excel up to 5MB).
"""
