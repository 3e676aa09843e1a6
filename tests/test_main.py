def create_book(client, title="Test Book", copies=1, genre="Fantasy"):
    book = {"title": title, "author": "Author", "genre": genre, "pages": 200, "total_copies": copies}
    r = client.post("/books/", json=book)
    assert r.status_code == 200
    return r.json()


def create_user(client, email="test@example.com", name="Test User"):
    r = client.post("/users/", json={"name": name, "email": email, "phone": "555-0101"})
    assert r.status_code == 200
    return r.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_user_and_book_and_rent_return(client):
    user_id = create_user(client)["id"]
    book = create_book(client, copies=1)
    assert book["available_copies"] == 1
    assert book["is_featured"] is False

    # Rent book
    r = client.post("/rentals/", json={"book_id": book["id"], "user_id": user_id, "days": 15})
    assert r.status_code == 200
    rental = r.json()
    assert rental["status"] == "active"
    assert rental["returned_date"] is None
    assert client.get(f"/books/{book['id']}").json()["available_copies"] == 0

    # Second rental of the only copy
    other_id = create_user(client, email="other@example.com")["id"]
    r = client.post("/rentals/", json={"book_id": book["id"], "user_id": other_id, "days": 3})
    assert r.status_code == 400
    assert r.json()["error"] == "out_of_stock"

    # Return book
    r = client.post(f"/rentals/{rental['id']}/return")
    assert r.status_code == 200
    assert r.json()["returned"] is True
    assert r.json()["status"] == "returned"
    assert client.get(f"/books/{book['id']}").json()["available_copies"] == 1

    # Return again
    r = client.post(f"/rentals/{rental['id']}/return")
    assert r.status_code == 400
    assert r.json()["error"] == "already_returned"


def test_rental_limit_over_http(client):
    user_id = create_user(client)["id"]
    books = [create_book(client, title=f"Book {i}", copies=2) for i in range(3)]
    for book in books[:2]:
        r = client.post("/rentals/", json={"book_id": book["id"], "user_id": user_id})
        assert r.status_code == 200

    r = client.post("/rentals/", json={"book_id": books[2]["id"], "user_id": user_id})
    assert r.status_code == 400
    assert r.json()["error"] == "rental_limit_exceeded"

    counts = client.get("/users/rental-counts").json()
    assert counts["limit"] == 2
    assert counts["counts"] == {str(user_id): 2}


def test_rental_period_bounds(client):
    user_id = create_user(client)["id"]
    book_id = create_book(client)["id"]
    for days in (0, 16):
        r = client.post("/rentals/", json={"book_id": book_id, "user_id": user_id, "days": days})
        assert r.status_code == 422


def test_unknown_ids_are_404(client):
    user_id = create_user(client)["id"]
    r = client.post("/rentals/", json={"book_id": 999, "user_id": user_id})
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"
    assert client.post("/rentals/999/return").status_code == 404
    assert client.get("/books/999").status_code == 404
    assert client.put("/books/999/featured", json={"featured": True}).status_code == 404


def test_update_book_recomputes_copies(client):
    user_id = create_user(client)["id"]
    book = create_book(client, copies=3)
    client.post("/rentals/", json={"book_id": book["id"], "user_id": user_id})

    r = client.put(f"/books/{book['id']}", json={"total_copies": 5, "title": "Renamed"})
    assert r.status_code == 200
    data = r.json()
    assert (data["total_copies"], data["available_copies"], data["title"]) == (5, 4, "Renamed")

    r = client.put(f"/books/{book['id']}", json={"total_copies": 0})
    assert r.status_code == 422


def test_featured_singleton(client):
    a = create_book(client, title="A")
    b = create_book(client, title="B", genre="Horror")

    assert client.put(f"/books/{b['id']}/featured", json={"featured": True}).status_code == 200
    r = client.put(f"/books/{a['id']}/featured", json={"featured": True})
    assert r.json()["is_featured"] is True
    assert client.get(f"/books/{b['id']}").json()["is_featured"] is False
    assert client.get("/books/featured").json()["id"] == a["id"]

    shelf = client.get("/books/", params={"include_featured": False}).json()
    assert [book["id"] for book in shelf] == [b["id"]]
    assert client.get("/books/genres").json() == ["Horror"]

    assert client.delete("/books/featured").json() == {"cleared": 1}
    assert client.get("/books/featured").json() is None


def test_list_books_search_and_genre(client):
    create_book(client, title="Dune", genre="Science Fiction")
    create_book(client, title="The Hobbit", genre="Fantasy")
    create_book(client, title="Dune Messiah", genre="Science Fiction")

    titles = [b["title"] for b in client.get("/books/", params={"q": "dune"}).json()]
    assert titles == ["Dune", "Dune Messiah"]
    fantasy = client.get("/books/", params={"genre": "Fantasy"}).json()
    assert [b["title"] for b in fantasy] == ["The Hobbit"]


def test_delete_book_keeps_rental_history(client):
    user_id = create_user(client)["id"]
    book = create_book(client)
    rental = client.post("/rentals/", json={"book_id": book["id"], "user_id": user_id}).json()

    r = client.delete(f"/books/{book['id']}")
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_input"

    client.post(f"/rentals/{rental['id']}/return")
    r = client.delete(f"/books/{book['id']}")
    assert r.status_code == 400
    assert client.get(f"/rentals/{rental['id']}").json()["status"] == "returned"

    unrented = create_book(client, title="Never Rented")
    assert client.delete(f"/books/{unrented['id']}").json() == {"ok": True}
    assert client.get(f"/books/{unrented['id']}").status_code == 404


def test_user_management(client):
    create_user(client, email="zed@example.com", name="Zed")
    amy = create_user(client, email="amy@example.com", name="Amy")

    assert [u["name"] for u in client.get("/users/").json()] == ["Amy", "Zed"]
    r = client.post("/users/", json={"name": "Dup", "email": "amy@example.com"})
    assert r.status_code == 400

    r = client.put(f"/users/{amy['id']}", json={"phone": "555-0199"})
    assert r.status_code == 200
    assert r.json()["phone"] == "555-0199"

    assert client.delete(f"/users/{amy['id']}").json() == {"ok": True}
    assert client.get(f"/users/{amy['id']}").status_code == 404


def test_deleted_user_keeps_rental_history(client):
    user_id = create_user(client)["id"]
    book = create_book(client, copies=2)
    rental = client.post("/rentals/", json={"book_id": book["id"], "user_id": user_id}).json()

    client.delete(f"/users/{user_id}")
    kept = client.get(f"/rentals/{rental['id']}").json()
    assert kept["user_id"] is None
    assert kept["book_id"] == book["id"]


def test_active_rentals_view_and_metrics(client):
    user_id = create_user(client)["id"]
    soon = create_book(client, title="Soon", copies=2)
    later = create_book(client, title="Later", copies=2)
    client.post("/rentals/", json={"book_id": later["id"], "user_id": user_id, "days": 10})
    client.post("/rentals/", json={"book_id": soon["id"], "user_id": user_id, "days": 1})

    active = client.get("/rentals/active").json()
    assert [r["book_title"] for r in active] == ["Soon", "Later"]
    assert active[0]["days_until_due"] == 1
    assert active[0]["due_status"] == "due_soon"
    assert active[1]["days_until_due"] == 10
    assert active[1]["due_status"] == "normal"

    metrics = client.get("/metrics").json()
    assert metrics["total_books"] == 2
    assert metrics["total_copies"] == 4
    assert metrics["available_copies"] == 2
    assert metrics["active_rentals"] == 2
    assert metrics["due_soon_rentals"] == 1
    assert metrics["overdue_rentals"] == 0

    assert len(client.get("/rentals/", params={"active": True}).json()) == 2
    assert len(client.get(f"/users/{user_id}/rentals").json()) == 2
    assert len(client.get(f"/books/{soon['id']}/rentals", params={"active": False}).json()) == 0
