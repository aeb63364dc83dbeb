from backend.main import create_app, init_database


def init_db():
    app = create_app({"PREPARAR_BD": False})

    if app.extensions["persistencia"].relational is None:
        print("No relational database configured (DB_CONNECTION_STRING or PG_* variables).")
        raise SystemExit(1)

    print("Creating tables and preparing usuarios...")
    columns = init_database(app)
    print(f"Database ready. Users columns: {columns}")


if __name__ == "__main__":
    init_db()
