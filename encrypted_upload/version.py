"""Encrypted Upload Meta information.
   Encrypted Upload keeps uploaded form data encrypted while it is spooled.
"""
__title__ = 'encrypted_upload'
__description__ = (
   'Spooled file-upload items whose memory and temp-file storage '
   'is always encrypted with a per-item ephemeral key.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 Encrypted Upload Contributors'
__author__ = 'Encrypted Upload Contributors'
__license__ = 'Apache-2.0'
