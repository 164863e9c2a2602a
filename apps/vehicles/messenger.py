# apps/vehicles/messenger.py

from urllib.parse import quote

from django.conf import settings

# encodeURIComponent 相当（ブラウザ側と同じエンコード）
_URI_COMPONENT_SAFE = "-_.!~*'()"


def build_inquiry_message(vehicle) -> str:
    return (
        "Hi! I'm interested in this vehicle:\n"
        "\n"
        f"🚗 {vehicle.make} {vehicle.model} ({vehicle.year})\n"
        f"💰 Price: ₱{vehicle.price:,}\n"
        f"📊 Mileage: {vehicle.mileage}\n"
        f"⚙️ Transmission: {vehicle.transmission}\n"
        f"⛽ Fuel Type: {vehicle.fuel_type}\n"
        f"📦 Category: {vehicle.category}\n"
        "\n"
        "Could you please provide more information about this unit?"
    )


def generate_messenger_url(vehicle, username: str = None) -> str:
    """
    車両情報入りのメッセージを事前入力した Messenger の URL
    https://m.me/{username}?text={message}
    """
    username = username or settings.SELLER_MESSENGER_USERNAME
    text = quote(build_inquiry_message(vehicle), safe=_URI_COMPONENT_SAFE)
    return f"https://m.me/{username}?text={text}"
