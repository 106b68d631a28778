"""
Real HTTP integration clients.

These clients talk to the Amplo Pay gateway over HTTPS.

Important:
- Must implement the same interface as the simulated clients
- Must return data shaped according to src/integrations/contracts/*

Switching:
The selection of simulated vs real clients happens in src/integrations/clients/factory.py only.
"""
