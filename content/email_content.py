import random

confirm_banners = [
    "One click and you're in ✉️",
    "Almost there! Just confirm your email 👇",
    "Quick check before we start 🔐",
    "Please confirm your subscription ✅",
    "Last step: confirm it's really you 👋",
]

def get_random_confirm_banner() -> str:
    return random.choice(confirm_banners)

confirmed_banners = [
    "You're subscribed! 🎉",
    "Welcome aboard! 🚀",
    "All set, thanks for joining ✨",
    "Confirmed. See you in your inbox 📬",
    "That's it, you're on the list ✅",
]

def get_random_confirmed_banner() -> str:
    return random.choice(confirmed_banners)

contact_subjects = [
    "New contact form message",
    "Someone reached out via the website",
    "Contact form submission",
]

def get_random_contact_subject() -> str:
    return random.choice(contact_subjects)
