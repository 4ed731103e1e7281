# Overview: Read-only lookups of collaborator records (products, customers, tenders, users).

from __future__ import annotations

from ..extensions import db
from ..models import Customer, PaymentMethod, Product, User
from ..validation import NotFoundError, ValidationError


def get_product(product_id: int, *, branch_id: int | None = None) -> Product:
    """Active product, optionally restricted to a branch."""
    product = db.session.get(Product, product_id)
    if not product or not product.is_active:
        raise NotFoundError("Product not found", details={"product_id": product_id}, code="PRODUCT_NOT_FOUND")
    if branch_id is not None and product.branch_id != branch_id:
        raise NotFoundError("Product not found", details={"product_id": product_id}, code="PRODUCT_NOT_FOUND")
    return product


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer or not customer.is_active:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id}, code="CUSTOMER_NOT_FOUND")
    return customer


def get_payment_method(payment_method_id: int) -> PaymentMethod:
    method = db.session.get(PaymentMethod, payment_method_id)
    if not method:
        raise NotFoundError(
            "Payment method not found",
            details={"payment_method_id": payment_method_id},
            code="PAYMENT_METHOD_NOT_FOUND",
        )
    if not method.is_active:
        raise ValidationError(
            f"Payment method {method.code} is inactive",
            details={"payment_method_id": payment_method_id},
            code="PAYMENT_METHOD_INACTIVE",
        )
    return method


def get_active_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise NotFoundError("User not found", details={"user_id": user_id}, code="USER_NOT_FOUND")
    return user


def list_products(branch_id: int, *, include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product).filter(Product.branch_id == branch_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name, Product.id).all()


def list_payment_methods(*, include_inactive: bool = False) -> list[PaymentMethod]:
    query = db.session.query(PaymentMethod)
    if not include_inactive:
        query = query.filter(PaymentMethod.is_active.is_(True))
    return query.order_by(PaymentMethod.sort_order, PaymentMethod.id).all()
