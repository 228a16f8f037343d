"""Storefront API: accounts, store themes and WhatsApp messaging."""
