import pytest

from ogckit.services.processor import Greeter, Processor


def test_greeter_id():
    assert Greeter().id == "greet"


def test_greeter_description():
    process = Greeter().process()
    assert process["id"] == "greet"
    assert process["version"] == "0.1.0"
    assert process["inputs"]["required"] == ["name"]
    assert process["inputs"]["properties"]["name"]["description"] == "Name to be greeted"
    assert process["outputs"]["type"] == "string"


def test_description_is_a_fresh_copy():
    greeter = Greeter()
    greeter.process()["inputs"]["required"].append("other")
    assert greeter.process()["inputs"]["required"] == ["name"]


@pytest.mark.asyncio
async def test_greeter_execute():
    response = await Greeter().execute({"inputs": {"name": "World"}}, None, "http://localhost/")
    assert response.body == b"Hello, World!\n"
    assert response.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("execute", [{}, {"inputs": {}}, {"inputs": {"name": 3}}])
async def test_greeter_execute_rejects_bad_inputs(execute):
    with pytest.raises(ValueError):
        await Greeter().execute(execute, None, "http://localhost/")


def test_processor_is_abstract():
    with pytest.raises(TypeError):
        Processor()