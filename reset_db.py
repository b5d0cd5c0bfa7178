from app import app, db, logger

with app.app_context():
    logger.info("Resetting database at: %s", app.config['SQLALCHEMY_DATABASE_URI'])

    # Drop all tables
    db.drop_all()
    logger.info("Tables dropped.")

    # Create all tables
    db.create_all()
    logger.info("Tables created.")
