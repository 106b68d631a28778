"""
Simulated integration clients.

These clients return fake (but realistic) responses without calling any external API.
They are used when:
- No Amplo Pay API key is configured
- We want to exercise the checkout end-to-end without a gateway

Important:
- Simulated clients must follow the SAME interface as the real HTTP clients.
- Records must be shaped according to src/integrations/contracts/*
"""
