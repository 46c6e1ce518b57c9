from mealroute.core.roles import Role, RoleSet


def test_parse_list_claim():
    roles = RoleSet.parse(["delivery_manager", "SELLER"])
    assert roles.has_all(Role.DELIVERY_MANAGER, Role.SELLER)


def test_parse_comma_joined_claim():
    roles = RoleSet.parse("DELIVERY_EXECUTIVE, ADMIN")
    assert Role.DELIVERY_EXECUTIVE in roles
    assert Role.ADMIN in roles
    assert len(roles) == 2


def test_unknown_and_empty_claims():
    assert len(RoleSet.parse(None)) == 0
    assert len(RoleSet.parse("")) == 0
    assert list(RoleSet.parse(["PILOT", Role.CUSTOMER.value])) == [Role.CUSTOMER]


def test_has_any_and_has_all():
    roles = RoleSet.parse(["DELIVERY_EXECUTIVE"])
    assert roles.has_any(Role.DELIVERY_MANAGER, Role.DELIVERY_EXECUTIVE)
    assert not roles.has_all(Role.DELIVERY_MANAGER, Role.DELIVERY_EXECUTIVE)
    assert not roles.has_any(Role.DELIVERY_MANAGER)
