from app.models.customer import Customer
from app.models.order import Order, OrderItem
from app.models.campaign import Campaign, CommunicationLog, Segment
from app.models.ingestion import IngestionJob
