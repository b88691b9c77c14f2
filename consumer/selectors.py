"""CSS selectors for the maps results list and place detail panel.

Every field lists its locators from most to least specific. The field
resolver tries them in order, so markup changes on the site usually only
cost a fallback instead of breaking extraction.
"""

# Results list
FEED = 'div[role="feed"]'
PLACE_ARTICLE = 'div[role="article"]'

# Consent interstitial shown to new sessions in some regions
CONSENT_BUTTONS = [
    'button[aria-label*="Accept all"]',
    'form[action*="consent"] button',
    'button:has-text("Accept all")',
]

CARD_NAME = [
    "div.qBF1Pd",
    "div.fontHeadlineSmall",
    "a[aria-label]",
]

BUSINESS_NAME = [
    "h1.DUwDvf",
    'div[role="main"] h1',
    "h1",
]

# Headings that show up in place of a business name while the panel loads
IGNORED_NAMES = {"Results", "Google Maps", "Map"}

CATEGORY = [
    'button[jsaction*="category"]',
    "button.DkEaL",
]

ADDRESS_BUTTON = [
    'button[data-item-id="address"]',
    'button[aria-label*="Address"]',
]

ADDRESS_TEXT = [
    'button[data-item-id="address"] div[class*="fontBodyMedium"]',
    'div[data-tooltip*="address"]',
]

PHONE_BUTTON = [
    'button[data-item-id*="phone"]',
    'button[aria-label*="Phone"]',
]

PHONE_TEXT = [
    'button[data-item-id*="phone"] div[class*="fontBodyMedium"]',
    'a[href^="tel:"]',
]

WEBSITE = [
    'a[data-item-id="authority"]',
    'a[aria-label*="Website"]',
]

RATING = [
    'div[role="img"][aria-label*="stars"]',
    'span[aria-label*="stars"]',
]

REVIEWS_COUNT = [
    'button[aria-label*="reviews"]',
    'span[aria-label*="reviews"]',
]

REVIEWS = [
    "div[data-review-id]",
    "div.jftiEf",
]

REVIEW_AUTHOR = [
    "button[aria-label]",
    "div.d4r55",
]

REVIEW_RATING = [
    'span[role="img"][aria-label*="stars"]',
    'div[aria-label*="stars"]',
]

REVIEW_TEXT = [
    "span.wiI7pd",
    "div.MyEned",
]

REVIEW_DATE = [
    "span.rsqaWe",
    "span.DU9Pgb",
]

OPENING_HOURS = [
    'button[data-item-id*="oh"]',
    'button[aria-label*="Hours"]',
    'div[aria-label*="Hours"]',
]

HOURS_ROWS = [
    "table.eK4R0e tr",
    'div[aria-label*="Hours"] tr',
]

OPENING_HOURS_TEXT = [
    'button[data-item-id*="oh"] div[class*="fontBodyMedium"]',
]
