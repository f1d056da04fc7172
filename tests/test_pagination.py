from unisocial.common.pagination import make_pagination, pagination_metadata


def test_defaults():
    pagination = make_pagination()

    assert (pagination.page, pagination.limit, pagination.offset) == (1, 10, 0)


def test_clamps_out_of_range_values():
    assert make_pagination(-3, 0).page == 1
    assert make_pagination(-3, 0).limit == 1
    assert make_pagination(None, None).limit == 10
    assert make_pagination(2, 500).limit == 100
    assert make_pagination(3, 20).offset == 40


def test_metadata_for_middle_page():
    meta = pagination_metadata(25, make_pagination(2, 10))

    assert meta == {
        "total": 25,
        "page": 2,
        "limit": 10,
        "totalPages": 3,
        "hasNextPage": True,
        "hasPrevPage": True,
        "nextPage": 3,
        "prevPage": 1,
    }


def test_metadata_for_empty_result():
    meta = pagination_metadata(0, make_pagination())

    assert meta["totalPages"] == 0
    assert meta["hasNextPage"] is False
    assert meta["nextPage"] is None
