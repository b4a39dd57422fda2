"""CLI shim -- delegates to docextract.cli.main().

Usage:
    python pdf_extract.py convert ./statements/extrato.pdf
    python pdf_extract.py analyze <DOCUMENT_ID>
"""

import sys

from docextract.cli import main

if __name__ == "__main__":
    sys.exit(main())
