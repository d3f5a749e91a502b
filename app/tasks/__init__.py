from app.tasks.billing import generate_monthly_bills

__all__ = ["generate_monthly_bills"]
