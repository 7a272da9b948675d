"""FieldVault Meta information.
   FieldVault protects sensitive document fields at rest with envelope encryption.
"""
__title__ = 'fieldvault'
__description__ = (
   'Envelope encryption, master-key rotation and plaintext migration '
   'for sensitive document-store fields.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/fieldvault'
