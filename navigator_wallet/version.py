"""Navigator Wallet Meta information.
   Navigator Wallet provisions sponsored custodial accounts on the Stellar
   network and keeps their private keys sealed under envelope encryption.
"""
__title__ = 'navigator_wallet'
__description__ = (
   'Navigator Wallet provisions sponsored Stellar accounts '
   'and seals their secrets with envelope encryption.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/navigator-wallet'
