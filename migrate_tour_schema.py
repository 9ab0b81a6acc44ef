"""
Migration: Create tour catalog, checkout and booking tables
Run once: python migrate_tour_schema.py
"""
import os
import psycopg2

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

SQL = """
CREATE TABLE IF NOT EXISTS tours (
    id VARCHAR(64) PRIMARY KEY,
    agent_id VARCHAR(64),
    title VARCHAR(300) NOT NULL,
    slug VARCHAR(300) NOT NULL UNIQUE,
    destination VARCHAR(200),
    country VARCHAR(100),
    duration_days INTEGER NOT NULL DEFAULT 1 CHECK (duration_days >= 1),
    duration_nights INTEGER NOT NULL DEFAULT 0 CHECK (duration_nights >= 0),
    base_price NUMERIC(12, 2) NOT NULL DEFAULT 0,
    child_price NUMERIC(12, 2),
    infant_price NUMERIC(12, 2),
    deposit_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    deposit_percentage NUMERIC(5, 2) NOT NULL DEFAULT 30,
    free_cancellation_days INTEGER NOT NULL DEFAULT 0,
    max_group_size INTEGER,
    pricing_config JSONB,
    deleted BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS tour_accommodations (
    id VARCHAR(64) NOT NULL,
    tour_id VARCHAR(64) NOT NULL REFERENCES tours(id) ON DELETE CASCADE,
    name VARCHAR(200) NOT NULL,
    tier VARCHAR(20) NOT NULL DEFAULT 'MID_RANGE'
        CHECK (tier IN ('BUDGET', 'MID_RANGE', 'LUXURY', 'ULTRA_LUXURY')),
    price_per_night NUMERIC(12, 2) NOT NULL DEFAULT 0,
    amenities JSONB NOT NULL DEFAULT '[]',
    rating NUMERIC(2, 1),
    location VARCHAR(200),
    description TEXT,
    room_type VARCHAR(100),
    sort_order INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (tour_id, id)
);

CREATE TABLE IF NOT EXISTS tour_addons (
    id VARCHAR(64) NOT NULL,
    tour_id VARCHAR(64) NOT NULL REFERENCES tours(id) ON DELETE CASCADE,
    name VARCHAR(200) NOT NULL,
    price NUMERIC(12, 2) NOT NULL DEFAULT 0,
    price_type VARCHAR(20) NOT NULL DEFAULT 'PER_PERSON'
        CHECK (price_type IN ('PER_PERSON', 'PER_GROUP', 'FLAT')),
    child_price NUMERIC(12, 2),
    duration VARCHAR(50),
    max_capacity INTEGER,
    day_available JSONB NOT NULL DEFAULT '[]',
    is_popular BOOLEAN NOT NULL DEFAULT FALSE,
    description TEXT,
    category VARCHAR(50),
    sort_order INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (tour_id, id)
);

CREATE TABLE IF NOT EXISTS tour_vehicles (
    id VARCHAR(64) NOT NULL,
    tour_id VARCHAR(64) NOT NULL REFERENCES tours(id) ON DELETE CASCADE,
    type VARCHAR(30) NOT NULL DEFAULT 'SAFARI_VAN',
    name VARCHAR(200) NOT NULL,
    max_passengers INTEGER NOT NULL CHECK (max_passengers > 0),
    price_per_day NUMERIC(12, 2) NOT NULL DEFAULT 0,
    features JSONB NOT NULL DEFAULT '[]',
    is_default BOOLEAN NOT NULL DEFAULT FALSE,
    description TEXT,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    sort_order INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (tour_id, id)
);

CREATE TABLE IF NOT EXISTS itinerary_days (
    tour_id VARCHAR(64) NOT NULL REFERENCES tours(id) ON DELETE CASCADE,
    day_number INTEGER NOT NULL CHECK (day_number >= 1),
    title VARCHAR(300) NOT NULL DEFAULT '',
    description TEXT,
    location VARCHAR(200),
    meals JSONB NOT NULL DEFAULT '[]',
    activities JSONB NOT NULL DEFAULT '[]',
    overnight VARCHAR(200),
    available_accommodation_ids JSONB NOT NULL DEFAULT '[]',
    default_accommodation_id VARCHAR(64),
    available_addon_ids JSONB NOT NULL DEFAULT '[]',
    PRIMARY KEY (tour_id, day_number)
);

CREATE TABLE IF NOT EXISTS checkout_sessions (
    id VARCHAR(64) PRIMARY KEY,
    tour_id VARCHAR(64) NOT NULL REFERENCES tours(id),
    start_date DATE NOT NULL,
    adults INTEGER NOT NULL DEFAULT 1,
    children INTEGER NOT NULL DEFAULT 0,
    infants INTEGER NOT NULL DEFAULT 0,
    expires_at TIMESTAMP NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS promo_codes (
    id SERIAL PRIMARY KEY,
    agent_id VARCHAR(64) NOT NULL,
    code VARCHAR(50) NOT NULL UNIQUE,
    discount_type VARCHAR(20) NOT NULL DEFAULT 'PERCENTAGE'
        CHECK (discount_type IN ('PERCENTAGE', 'FIXED')),
    discount_value NUMERIC(12, 2) NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    valid_from TIMESTAMP,
    valid_until TIMESTAMP,
    tour_ids JSONB NOT NULL DEFAULT '[]',
    max_uses INTEGER,
    uses_per_user INTEGER NOT NULL DEFAULT 1,
    min_booking_amount NUMERIC(12, 2),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS bookings (
    id VARCHAR(64) PRIMARY KEY,
    booking_reference VARCHAR(32) NOT NULL UNIQUE,
    tour_id VARCHAR(64) NOT NULL REFERENCES tours(id),
    session_id VARCHAR(64),
    user_id VARCHAR(64),
    start_date DATE NOT NULL,
    end_date DATE,
    adults INTEGER NOT NULL,
    children INTEGER NOT NULL DEFAULT 0,
    infants INTEGER NOT NULL DEFAULT 0,
    selections JSONB NOT NULL DEFAULT '{}',
    travelers JSONB NOT NULL DEFAULT '[]',
    contact_name VARCHAR(200) NOT NULL,
    contact_email VARCHAR(200) NOT NULL,
    contact_phone VARCHAR(30) NOT NULL,
    special_requests TEXT,
    base_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    child_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    infant_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    vehicle_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    accommodation_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    activities_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    subtotal_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    tax_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    discount_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    total_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    deposit_amount NUMERIC(12, 2),
    balance_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    promo_code_id INTEGER REFERENCES promo_codes(id),
    payment_type VARCHAR(20) NOT NULL DEFAULT 'FULL'
        CHECK (payment_type IN ('FULL', 'DEPOSIT', 'PAY_LATER')),
    status VARCHAR(20) NOT NULL DEFAULT 'PENDING'
        CHECK (status IN ('PENDING', 'CONFIRMED', 'PAID', 'CANCELLED')),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS promo_code_usages (
    id SERIAL PRIMARY KEY,
    promo_code_id INTEGER NOT NULL REFERENCES promo_codes(id),
    user_id VARCHAR(64),
    booking_id VARCHAR(64) REFERENCES bookings(id),
    used_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS payments (
    id SERIAL PRIMARY KEY,
    booking_id VARCHAR(64) NOT NULL REFERENCES bookings(id),
    tracking_id VARCHAR(100),
    amount NUMERIC(12, 2) NOT NULL,
    method VARCHAR(20) NOT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'PENDING',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_tours_agent               ON tours(agent_id);
CREATE INDEX IF NOT EXISTS idx_itinerary_days_tour       ON itinerary_days(tour_id);
CREATE INDEX IF NOT EXISTS idx_checkout_sessions_tour    ON checkout_sessions(tour_id);
CREATE INDEX IF NOT EXISTS idx_promo_codes_agent         ON promo_codes(agent_id);
CREATE INDEX IF NOT EXISTS idx_promo_code_usages_promo   ON promo_code_usages(promo_code_id);
CREATE INDEX IF NOT EXISTS idx_bookings_tour             ON bookings(tour_id);
CREATE INDEX IF NOT EXISTS idx_bookings_reference        ON bookings(booking_reference);
CREATE INDEX IF NOT EXISTS idx_payments_booking          ON payments(booking_id);
"""


def run():
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise Exception("DATABASE_URL env var not set")

    conn = psycopg2.connect(database_url)
    cur = conn.cursor()
    cur.execute(SQL)
    conn.commit()
    conn.close()
    print("✅ tour schema created successfully.")


if __name__ == '__main__':
    run()
