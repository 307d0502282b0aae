"""seqserve

Sets up a local NCBI BLAST+ search server. The command line walks the user
from nothing configured to a running server: it locates (or downloads) BLAST+,
asks for a database directory and formats any FASTA files found there.
"""

__all__ = ["cli","commands","environment","fetcher","options","pipeline","scanner"]


__version__ = "1.0.0"
