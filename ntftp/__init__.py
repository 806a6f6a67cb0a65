"""
ntftp - Interactive TFTP Client

Keeps a prompt open, runs one get/put at a time against a TFTP server and
can be interrupted at any point: the first Ctrl-C cancels the running
transfer, a second one within three seconds quits.
"""

__version__ = '0.1.0'
