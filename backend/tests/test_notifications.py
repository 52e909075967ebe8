"""Customer notification tests."""

from canteen.services import order_service


def _place(actor, item):
    return order_service.create_order(actor, [{"menu_item_id": item.id, "quantity": 1}])


def test_customer_sees_own_notifications_newest_first(client, staff_user, student_user, student_headers, item_a):
    order = _place(student_user, item_a)
    order_service.transition_status(staff_user, order.id, "preparing")

    resp = client.get("/api/notifications", headers=student_headers)

    assert resp.status_code == 200
    notifications = resp.json["notifications"]
    assert [n["status"] for n in notifications] == ["preparing", "pending"]
    assert notifications[0]["message"] == "Your order is being prepared"
    assert notifications[0]["order_id"] == order.id
    assert notifications[0]["is_read"] is False


def test_notifications_are_private(client, student_user, other_student_headers, item_a):
    _place(student_user, item_a)

    resp = client.get("/api/notifications", headers=other_student_headers)
    assert resp.json["notifications"] == []


def test_mark_read_and_unread_filter(client, student_user, student_headers, item_a):
    _place(student_user, item_a)
    notification_id = client.get("/api/notifications", headers=student_headers).json["notifications"][0]["id"]

    resp = client.post(f"/api/notifications/{notification_id}/read", headers=student_headers)
    assert resp.status_code == 200
    assert resp.json["notification"]["is_read"] is True
    assert resp.json["notification"]["read_at"] is not None

    unread = client.get("/api/notifications?unread=true", headers=student_headers).json["notifications"]
    assert unread == []


def test_cannot_mark_someone_elses_notification(client, student_user, student_headers, other_student_headers, item_a):
    _place(student_user, item_a)
    notification_id = client.get("/api/notifications", headers=student_headers).json["notifications"][0]["id"]

    resp = client.post(f"/api/notifications/{notification_id}/read", headers=other_student_headers)
    assert resp.status_code == 404

    still_unread = client.get("/api/notifications?unread=true", headers=student_headers).json["notifications"]
    assert [n["id"] for n in still_unread] == [notification_id]
