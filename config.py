import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

STORE_NAME = os.getenv("STORE_NAME", "Blush Boutique")
STORE_TAGLINE = os.getenv("STORE_TAGLINE", "Luxury Women's Wear")
STORE_LOCATION = os.getenv("STORE_LOCATION", "Pune, Maharashtra, India")
SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "support@blushboutique.in")
SUPPORT_PHONE = os.getenv("SUPPORT_PHONE", "+91 XXXXXXXXXX")
CURRENCY = os.getenv("CURRENCY", "INR")
COURIER_PARTNER = os.getenv("COURIER_PARTNER", "Delhivery")

# Flat charges added to every order, in major currency units
SHIPPING_CHARGE = float(os.getenv("SHIPPING_CHARGE", "0"))
TAX_AMOUNT = float(os.getenv("TAX_AMOUNT", "0"))

RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")

EMAIL_USER = os.getenv("EMAIL_USER")
EMAIL_PASS = os.getenv("EMAIL_PASS")
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))
SMTP_ALLOW_INSECURE = os.getenv("SMTP_ALLOW_INSECURE") == "true"
SENDER_NAME = os.getenv("SENDER_NAME", STORE_NAME)

GUEST_CART_COOKIE = os.getenv("GUEST_CART_COOKIE", "guest_cart")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
