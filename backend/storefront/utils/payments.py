import hashlib
import hmac


def payment_signature(gateway_order_id: str, gateway_payment_id: str, *, secret: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
    *,
    secret: str,
) -> bool:
    expected = payment_signature(gateway_order_id, gateway_payment_id, secret=secret)
    return hmac.compare_digest(expected, signature)


def receipt_for(order_ids: list[int]) -> str:
    if len(order_ids) == 1:
        return f"order_{order_ids[0]}"
    return "cart_" + "_".join(str(order_id) for order_id in order_ids)
