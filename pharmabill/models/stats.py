from pydantic import BaseModel


class DashboardStats(BaseModel):
    daily_turnover: int = 0
    monthly_turnover: int = 0
    total_collected: int = 0
    total_remaining: int = 0
    invoice_count: int = 0
