import pytest

from cyber_vault import dorks


def test_libraries():
    assert len(dorks.get_dorks('google')) == 7
    assert len(dorks.get_dorks('YANDEX')) == 5
    assert len(dorks.get_dorks('halloween')) == 2


def test_every_dork_is_complete():
    for library in dorks.DORK_LIBRARIES.values():
        for dork in library:
            assert dork['risk'] in dorks.RISK_LEVELS
            assert dork['query'] and dork['explanation']
            assert dork['tips']


def test_filter_by_category():
    leaks = dorks.get_dorks('google', 'Data Leaks')
    assert len(leaks) == 2
    assert all(dork['category'] == 'Data Leaks' for dork in leaks)


def test_get_dorks_returns_a_copy():
    dorks.get_dorks('google').clear()
    assert len(dorks.GOOGLE_DORKS) == 7


def test_filter_by_risk():
    assert {dork['risk'] for dork in dorks.get_dorks_by_risk('yandex', 'High')} == {'High'}
    assert len(dorks.get_dorks_by_risk('yandex', 'Critical')) == 3


def test_categories_keep_first_seen_order():
    assert dorks.get_categories('google') == [
        'Data Leaks', 'Open Directories', 'Admin Interfaces', 'Web Applications', 'IoT Security', 'Data Exposure',
    ]


def test_unknown_library():
    with pytest.raises(ValueError):
        dorks.get_dorks('bing')


def test_build_search_url_encodes_query():
    url = dorks.build_search_url('google', 'filetype:env "API_KEY"')
    assert url == 'https://www.google.com/search?q=filetype%3Aenv%20%22API_KEY%22'
    assert dorks.build_search_url('yandex', 'a b').startswith('https://yandex.com/search/?text=a%20b')
    with pytest.raises(ValueError):
        dorks.build_search_url('bing', 'x')
