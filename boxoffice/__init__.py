"""Point-of-sale order approval, inventory ledger and ticket issuance service."""
