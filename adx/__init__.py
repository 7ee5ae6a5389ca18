"""
Confidential Ad Exchange (ADX)

A sealed-bid batch auction engine for advertising slots:
- Provider-managed bidding batches
- Encrypted bids compared homomorphically
- Asynchronous oracle decryption of the winning amount only
"""

__version__ = "0.1.0"
