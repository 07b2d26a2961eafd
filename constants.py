CATEGORY_ICONS: dict[str, str] = {
    "shopping-cart": "ShoppingCart",
    "home": "Home",
    "zap": "Zap",
    "car": "Car",
    "utensils": "Utensils",
    "film": "Film",
    "heart-pulse": "HeartPulse",
    "shopping-bag": "ShoppingBag",
    "graduation-cap": "GraduationCap",
    "repeat": "Repeat",
    "shield": "Shield",
    "sparkles": "Sparkles",
    "gift": "Gift",
    "plane": "Plane",
    "ellipsis": "Ellipsis",
    "coffee": "Coffee",
    "music": "Music",
    "book": "Book",
    "phone": "Phone",
    "wifi": "Wifi",
    "tv": "Tv",
    "camera": "Camera",
    "gamepad-2": "Gamepad2",
    "dumbbell": "Dumbbell",
    "baby": "Baby",
    "dog": "Dog",
    "cat": "Cat",
    "briefcase": "Briefcase",
    "hammer": "Hammer",
    "wrench": "Wrench",
    "scissors": "Scissors",
    "palette": "Palette",
    "shirt": "Shirt",
    "glasses": "Glasses",
    "bike": "Bike",
    "bus": "Bus",
    "train-front": "TrainFront",
    "fuel": "Fuel",
    "parking-meter": "ParkingMeter",
    "pill": "Pill",
    "stethoscope": "Stethoscope",
    "banknote": "Banknote",
    "credit-card": "CreditCard",
    "piggy-bank": "PiggyBank",
    "landmark": "Landmark",
    "calculator": "Calculator",
    "receipt": "Receipt",
    "newspaper": "Newspaper",
    "flower-2": "Flower2",
    "tree-pine": "TreePine",
    "umbrella": "Umbrella",
    "cloud-rain": "CloudRain",
}
"""Icon name stored on a category -> component name the frontend renders."""

DEFAULT_CATEGORIES: tuple[tuple[str, str, str], ...] = (
    ("Groceries", "shopping-cart", "#22c55e"),
    ("Housing", "home", "#3b82f6"),
    ("Utilities", "zap", "#eab308"),
    ("Transport", "car", "#f97316"),
    ("Dining", "utensils", "#ef4444"),
    ("Entertainment", "film", "#a855f7"),
    ("Health", "heart-pulse", "#ec4899"),
    ("Shopping", "shopping-bag", "#14b8a6"),
    ("Education", "graduation-cap", "#6366f1"),
    ("Subscriptions", "repeat", "#0ea5e9"),
    ("Insurance", "shield", "#64748b"),
    ("Personal Care", "sparkles", "#f472b6"),
    ("Gifts", "gift", "#d946ef"),
    ("Travel", "plane", "#06b6d4"),
    ("Other", "ellipsis", "#94a3b8"),
)

DEFAULT_PAYMENT_METHODS: tuple[tuple[str, str], ...] = (
    ("Cash", "cash"),
    ("Credit Card", "credit_card"),
    ("Debit Card", "debit_card"),
    ("UPI", "upi"),
    ("Bank Transfer", "bank_transfer"),
    ("Other", "other"),
)

SUPPORTED_CURRENCIES: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "JPY": "¥",
    "CAD": "CA$",
    "AUD": "A$",
    "CHF": "CHF",
    "CNY": "¥",
    "SGD": "S$",
    "NZD": "NZ$",
    "BRL": "R$",
    "MXN": "MX$",
    "KRW": "₩",
    "AED": "AED",
}
