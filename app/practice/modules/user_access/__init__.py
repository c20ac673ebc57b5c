"""Firm membership, module permissions and staff/client assignments."""
