"""
Utility modules for the checkout service
"""
from .config_loader import PaymentSettings, load_payment_settings
from .pix import generate_mock_pix_code, render_qr_data_url

__all__ = [
    'PaymentSettings',
    'load_payment_settings',
    'generate_mock_pix_code',
    'render_qr_data_url',
]
