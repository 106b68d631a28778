"""
Contracts (data models).

This folder defines the request/response shapes shared by the payment clients:
- PaymentRecord / LineItem / PaymentStatus
- create-payment requests and webhook events
- the payment error taxonomy

Both the simulated and the real HTTP clients use these contracts, so the
checkout flow never depends on which implementation is active.
"""
