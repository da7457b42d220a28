"""
Configuration for the AM Store web application.
"""

import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Settings read from the environment (or a local .env file)."""

    SESSION_SECRET = os.getenv('SESSION_SECRET', 'amstore-luxury-2025-key')
    MAX_UPLOAD_MB = int(os.getenv('MAX_UPLOAD_MB', '10'))
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    # Database
    MONGODB_URI = os.getenv('MONGODB_URI', 'mongodb://localhost:27017/')
    MONGODB_DB = os.getenv('MONGODB_DB', 'amstore_db')

    # Admin dashboard access
    ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', 'amstore2025')

    # Telegram bot used for new-order notifications
    TELEGRAM_BOT_TOKEN = os.getenv('TELEGRAM_BOT_TOKEN')
    TELEGRAM_CHAT_ID = os.getenv('TELEGRAM_CHAT_ID')

    # Gemini API for the admin insight report
    GEMINI_API_KEY = os.getenv('GEMINI_API_KEY')
    GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-3-pro-preview')

    # Storefront links
    INSTAGRAM_URL = 'https://www.instagram.com/amstoer?igsh=dWZuejIzZ2ozcjUw'
    TIKTOK_URL = 'https://www.tiktok.com/@am_store_dz16'
