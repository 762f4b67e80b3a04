"""HushVault Meta information.
   HushVault keeps credentials encrypted on disk and injects them into
   subprocesses without exposing the values to the caller.
"""
__title__ = 'hushvault'
__description__ = (
   'Local encrypted secrets vault with subprocess injection '
   'and real-time output redaction.'
)
__version__ = '0.4.0'
__copyright__ = 'Copyright (c) 2026 HushVault Authors'
__author__ = 'HushVault Authors'
__author_email__ = 'maintainers@hushvault.dev'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/hushvault/hushvault'
