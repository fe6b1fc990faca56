# typetrainer/create_db.py
from typetrainer import create_app, db
from typetrainer.models import User, Text, TextProgress, CoinEvent  # noqa: F401

app = create_app()

with app.app_context():
    print("🗑️ Dropping old tables...")
    db.drop_all()
    print("📦 Creating new tables...")
    db.create_all()
    print("✅ Database has been created/reset.")
