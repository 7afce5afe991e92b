from uuid import UUID

from sqlalchemy.orm import Session

from indowater.models.customer import Customer
from indowater.schemas.customer import CustomerCreate


class CustomerRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self, client_id: str | None = None, skip: int = 0, limit: int = 100
    ) -> list[Customer]:
        query = self.db.query(Customer)
        if client_id is not None:
            query = query.filter(Customer.client_id == client_id)
        return query.order_by(Customer.created_at.asc()).offset(skip).limit(limit).all()

    def get_by_id(self, customer_id: UUID) -> Customer | None:
        return self.db.query(Customer).filter(Customer.id == customer_id).first()

    def get_by_external_id(self, external_id: str) -> Customer | None:
        return self.db.query(Customer).filter(Customer.external_id == external_id).first()

    def create(self, data: CustomerCreate) -> Customer:
        customer = Customer(**data.model_dump())
        self.db.add(customer)
        self.db.commit()
        self.db.refresh(customer)
        return customer
