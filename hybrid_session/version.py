"""Hybrid Session Meta information.
   Hybrid Session stores session data in an encrypted cookie,
   falling back to a database table when the cookie cannot be used.
"""
__title__ = 'hybrid_session'
__description__ = (
   'Hybrid Session stores session data in an encrypted cookie, '
   'falling back to a database table when the cookie cannot be used.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
