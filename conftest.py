"""
Root pytest configuration.
Switches the app to its in-memory SQLite settings before anything imports it.
"""
import os

# Set testing environment before importing app
os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ.setdefault("LOG_JSON", "False")
os.environ.setdefault("BASE_URL", "http://shop.test")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
