"""
Delivery pricing policy.

All functions here are pure: derived fees depend only on the order's input
fields and are never recomputed after the order is persisted.
"""

from dataclasses import dataclass

HOME_CITY_ID = 1
HOME_CITY_BASE_FEE = 60.0
OUTSIDE_CITY_BASE_FEE = 100.0

LIGHT_WEIGHT_LIMIT_KG = 0.5
STANDARD_WEIGHT_LIMIT_KG = 1.0
STANDARD_WEIGHT_FEE = 70.0
HEAVY_SURCHARGE = 10.0
PER_EXTRA_KG_FEE = 15.0

COD_FEE_RATE = 0.01

DEFAULT_STORE_NAME = "Default Store"
DEFAULT_STORE_CONTACT_PHONE = "123456789"
DEFAULT_ORDER_TYPE = "Delivery"
DEFAULT_ORDER_TYPE_ID = 1


@dataclass(frozen=True)
class OrderCharges:
    """Derived commercial fields of an order."""
    delivery_fee: float
    delivery_charge: float
    cod_fee: float
    total_fee: float
    order_amount: float
    cod_amount: float
    promo_discount: float = 0.0
    discount: float = 0.0


def base_fee(city_id: int) -> float:
    if city_id == HOME_CITY_ID:
        return HOME_CITY_BASE_FEE
    return OUTSIDE_CITY_BASE_FEE


def calculate_delivery_fee(weight_kg: float, city_id: int) -> float:
    """Delivery fee for a parcel.

    The (0.5, 1.0] kg band is a flat fee regardless of city. Above 1 kg
    every extra kilogram, fractional ones pro rata, is charged on top of the
    city base fee plus a heavy-parcel surcharge.
    """
    city_fee = base_fee(city_id)
    if LIGHT_WEIGHT_LIMIT_KG < weight_kg <= STANDARD_WEIGHT_LIMIT_KG:
        return STANDARD_WEIGHT_FEE
    if weight_kg > STANDARD_WEIGHT_LIMIT_KG:
        extra_kg = weight_kg - STANDARD_WEIGHT_LIMIT_KG
        return city_fee + HEAVY_SURCHARGE + extra_kg * PER_EXTRA_KG_FEE
    return city_fee


def calculate_cod_fee(amount_to_collect: float) -> float:
    return amount_to_collect * COD_FEE_RATE


def calculate_charges(weight_kg: float, city_id: int, amount_to_collect: float) -> OrderCharges:
    """Compute every derived commercial field for a new order."""
    delivery_fee = calculate_delivery_fee(weight_kg, city_id)
    cod_fee = calculate_cod_fee(amount_to_collect)
    return OrderCharges(
        delivery_fee=delivery_fee,
        delivery_charge=delivery_fee,
        cod_fee=cod_fee,
        total_fee=delivery_fee + cod_fee,
        order_amount=amount_to_collect,
        cod_amount=amount_to_collect,
    )
